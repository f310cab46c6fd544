"""HTTP surface: the GraphQL endpoint, the voyager page and health checks."""
