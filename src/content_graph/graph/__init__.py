"""Root query execution and batched relation hydration."""
