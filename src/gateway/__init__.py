"""NextChat gateway.

Authenticates chat front-end requests against Azure AD, provisions a
budget-bounded LLM credential per user, and forwards LLM calls with that
credential in place of the user's identity token.
"""

__version__ = "0.1.0"
