"""Archive generation core: fetcher, encoders, registry and dispatcher."""
