"""Ports (interfaces and errors) for the Stitching bounded context."""
