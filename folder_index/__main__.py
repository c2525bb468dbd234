"""Allow `python -m folder_index`."""

from folder_index.cli import main

main()
