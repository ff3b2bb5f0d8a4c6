"""Runtime - context propagation, sampling, instrumentation and polling."""
