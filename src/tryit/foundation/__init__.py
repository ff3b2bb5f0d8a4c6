"""Foundation - configuration and error primitives shared by every layer."""
