"""Application layer for the Stitching bounded context."""
