"""Course structures and enrollments."""
