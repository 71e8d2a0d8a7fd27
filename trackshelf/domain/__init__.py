"""Domain services: library management and the upload pipeline."""
