"""Command-line helpers: price ladder inspection and a scripted market lifecycle."""
