"""
docdetect - Version and metadata
"""

__version__ = "1.0.0"
__author__ = "docdetect Contributors"
__license__ = "MIT"
__description__ = (
    "Three-stage detection of résumés and job descriptions in email attachments"
)
