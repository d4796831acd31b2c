"""Domain layer for the Stitching bounded context."""
