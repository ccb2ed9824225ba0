"""
Recipe client application package.

The client talks to the recipe API on behalf of UI views, keeping:
- Authentication: a bearer credential resolved per request
- Consistency: a keyed cache invalidated after confirmed writes

Structure:
- app.main: Access layer wiring and sign-in/sign-out.
- app.auth: Credential provider.
- app.adapters: Request gateway, middleware and typed resource clients.
- app.caching: Cache keys and the cache store.
- app.domain: Wire models, recipe operations and the mutation coordinator.
- app.queries: Query and mutation handles for views.
"""
