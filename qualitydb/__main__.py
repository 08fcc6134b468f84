from qualitydb.cli import main

main()
