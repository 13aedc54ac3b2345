"""
This orm module contains the data-access layer of Goldfinch: the generic repository,
the Unit of Work, identity-key resolution, change notifications and custom column types.
"""
