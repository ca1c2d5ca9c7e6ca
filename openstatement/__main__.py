from openstatement.cli import main

main()
