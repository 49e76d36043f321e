"""Loading and joining study inputs."""
