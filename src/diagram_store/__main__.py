from diagram_store.app import main


main()
