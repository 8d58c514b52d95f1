"""
Nality - Pre-registration onboarding service.

Packages:
- nality: settings, Supabase access, web application, CLI
- onboarding: alternate onboarding flow engine (paths A/B/C)
"""

__version__ = "0.1.0"
