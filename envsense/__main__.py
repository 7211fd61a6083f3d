from envsense.cli import main

main()
