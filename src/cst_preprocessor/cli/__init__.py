"""
CLI Subpackage.

Modules:
    - ``__main__``: The argparse definition and the rule step dispatcher.
"""
