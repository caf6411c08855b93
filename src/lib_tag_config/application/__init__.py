"""Pure resolution logic: merging, tag selection, ancestry, composition, caching, deltas."""
