"""Local storage for uploaded course images."""
