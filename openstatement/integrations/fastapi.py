from typing import List, Optional

from fastapi import Depends, HTTPException, Request

from openstatement.exceptions import FormatError
from openstatement.integrations.pydantic import PydanticTransaction, from_dataclass
from openstatement.parser import FORMATS, StatementDocument, StatementParser


async def get_statement(request: Request) -> StatementDocument:
    """
    FastAPI dependency that parses the request body into a statement object.

    The format comes from the ``fmt`` query parameter (mt940, camt053, csv)
    and is detected from the payload when absent. Parse errors are returned
    as HTTP 422 with the error text unchanged.
    """
    body = await request.body()
    if not body:
        raise HTTPException(status_code=400, detail="Empty payload")

    fmt: Optional[str] = request.query_params.get("fmt")
    if fmt is not None and fmt.lower() not in FORMATS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown statement format '{fmt}'. Expected one of: {', '.join(FORMATS)}",
        )

    try:
        return StatementParser(body, fmt).parse()
    except FormatError as e:
        raise HTTPException(status_code=422, detail=str(e))


async def get_transactions(
    document: StatementDocument = Depends(get_statement),
) -> List[PydanticTransaction]:
    """FastAPI dependency returning the normalized transactions of the body."""
    return [from_dataclass(t) for t in document.collect_transactions()]
