# Services package.
#
#   article_service  — ArticleService: CRUD + filtered pagination behind the
#                      read-through cache, with invalidation on every write
#   auth_service     — registration / login answering with a JWT
#   user_service     — persistence helpers for User
#
# ArticleService receives its AsyncSession and CacheManager at construction;
# the plain-function services take the AsyncSession as first argument.  In
# both cases the session comes from the ``get_db`` dependency.
