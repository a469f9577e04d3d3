"""Client-side data synchronization for a fleet of environmental sensors."""
