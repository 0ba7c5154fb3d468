"""Users, sessions, and the form/response models of the /auth endpoints."""
