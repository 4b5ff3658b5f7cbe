"""One module per stack component, plus host-level phases in ``system``."""
