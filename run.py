from boardgame_catalog_builder.cli import main

if __name__ == "__main__":
    main()
