"""omnimap command-line interface (Typer + rich)."""
