from clinicsend.cli.app import main

main()
