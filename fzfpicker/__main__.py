"""Module entrypoint for ``python -m fzfpicker``.

This keeps module-mode execution behavior identical to the console script.
All argument parsing and pipeline setup happen in ``fzfpicker.cli``.
"""

from .cli import main


if __name__ == "__main__":
    main()
