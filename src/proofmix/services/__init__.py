"""
proofmix services: admission, event storage and graduation.
"""
