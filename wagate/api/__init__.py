"""HTTP surface of the gateway: routes, dependencies, middleware and limits."""
