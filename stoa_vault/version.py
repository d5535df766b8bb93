"""Stoa Vault Meta information.
   Stoa Vault keeps a local journal encrypted under a single passphrase.
"""
__title__ = 'stoa_vault'
__description__ = (
   'Stoa Vault keeps a local journal encrypted at rest '
   'under a single passphrase.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 Stoa Notes'
__author__ = 'Stoa Notes'
__author_email__ = 'dev@stoa-notes.org'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/stoa-notes/stoa-vault'
