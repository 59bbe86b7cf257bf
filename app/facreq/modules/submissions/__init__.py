"""
Faculty requirement submissions.

- Every upload is a new version of a (faculty, course, document type, term) slot
- Automated checks produce a verdict; a reviewer makes the final call
- Approved files are promoted out of the staging area into the vault
- Every status change is recorded to an append-only transition log
"""
