"""
Repository Layer - Website Data Access

The website's documents (coupons, customers, influencers, commissions,
service bookings, payment links) live in Supabase tables. The repository
hides the query builder from the services.

Author: Back Office Team
Date: 2025-11-10
"""
from backoffice.repositories.website_repository import WebsiteRepository, get_website_repository

__all__ = ['WebsiteRepository', 'get_website_repository']
