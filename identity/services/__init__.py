# Services package.
#
#   identity_service: user CRUD, login and logout over the cache-aside layer
#
# The service is constructed once at startup with its store, cache, token
# issuer and password hasher; routers reach it through the
# ``get_identity_service`` dependency.
