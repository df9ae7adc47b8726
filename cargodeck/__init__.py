"""cargodeck: multi-project discovery, batch tooling and aggregation for Cargo workspaces."""

__version__ = "0.1.0"
