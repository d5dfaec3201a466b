"""
Argv preprocessor for forgiving CLI flag handling.

Normalizes sys.argv before Typer parses it:
- ``gitsync --version`` → ``gitsync version``
- ``gitsync run --debug`` → ``gitsync --debug run``
"""

_GLOBAL_FLAGS = {"--debug", "-v"}


def preprocess_argv(argv: list[str]) -> list[str]:
    """Normalize CLI arguments for Typer compatibility.

    Applied rules (in order):
    1. ``--version`` / ``-V`` as first arg → ``version`` subcommand
    2. Global flags hoisted before the subcommand
    """
    if not argv:
        return argv

    if argv[0] in ("--version", "-V"):
        return ["version"]

    hoisted: list[str] = []
    rest: list[str] = []
    for token in argv:
        if token in _GLOBAL_FLAGS:
            if token not in hoisted:
                hoisted.append(token)
        else:
            rest.append(token)
    return hoisted + rest
