"""
User API Backend — Business Handlers
=====================================

Plain async functions with the signature
`(Request, RequestContext) -> Response`. They know nothing about HTTP
frameworks or Lambda; `app.adapters` and `app.lambda_handler` host them
behind the request pipeline.
"""
