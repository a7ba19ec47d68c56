"""Infrastructure: configuration, logging, catalog and payment gateways."""
