"""Auth module — principal model and JWT dependencies."""
