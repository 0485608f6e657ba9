from xenbuild.cli import main

main()
