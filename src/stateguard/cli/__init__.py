"""stateguard command line."""
