"""Small helpers shared across patchrec modules."""
