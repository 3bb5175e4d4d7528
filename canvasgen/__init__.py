"""Canvas image generation engine."""
