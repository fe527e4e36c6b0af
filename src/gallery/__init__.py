"""Gallery: an image gallery web service over a pluggable object storage bucket."""
