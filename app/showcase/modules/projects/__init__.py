"""
Projects module.

Scope:
- Teams and team membership (membership grants write access to a team's projects)
- Projects tagged with SDGs and carrying media URLs
- Composite student submission (team + leader + project + tags + media in one write)
- Nested read shape with the aggregate rating and visibility-filtered feedback

Hard constraints:
- Media bytes never pass through here; URLs are opaque strings
- SDG rows are reference data and never written by request handlers
"""
