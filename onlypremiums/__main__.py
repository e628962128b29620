from onlypremiums.cli import main

main()
