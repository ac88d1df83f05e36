"""Station check-in verification service"""
