"""Terminal dashboard rendering and keyboard input."""
