"""Directory navigation, folder tree cache and selection tracking."""
