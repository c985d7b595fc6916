"""Company management and multi-company access resolution."""
