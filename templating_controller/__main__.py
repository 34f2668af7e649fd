"""Run the templating-controller command line tool as `python -m templating_controller`."""

from templating_controller.tool.templating_controller import main

if __name__ == "__main__":
    main()
