"""stateguard - keep dependency-injected service objects stateless."""

__version__ = "0.1.0"
