"""
Recipe client: data-access and consistency layer for the recipe service.
"""
