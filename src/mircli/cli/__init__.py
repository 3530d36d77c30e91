"""mircli command-line interface (Typer)."""
