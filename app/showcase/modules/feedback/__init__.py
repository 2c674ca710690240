"""
Feedback module.

- Append-only feedback rows (rating 1-5, optional private flag)
- Average rating is recomputed from the rows on every read, never stored
- Private rows are hidden from viewers and students; they still count toward the mean
"""
