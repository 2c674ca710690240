"""
Central constants for the showcase application.
"""
from __future__ import annotations

# File suffixes that mark a media URL as an image; anything else is a video.
IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png", ".gif")

# Label given to the submitting student on the team their submission creates.
TEAM_LEADER_ROLE = "leader"
TEAM_MEMBER_ROLE = "member"

# Roles open to self-registration; admin accounts come from scripts/init_db.py.
REGISTRABLE_ROLES = frozenset({"viewer", "student", "faculty"})

MIN_RATING = 1
MAX_RATING = 5

# The 17 Sustainable Development Goals: (number, name, description, color)
SDGS = (
    (1, "No Poverty", "End poverty in all its forms everywhere", "#E5243B"),
    (2, "Zero Hunger", "End hunger, achieve food security and improved nutrition", "#DDA63A"),
    (3, "Good Health", "Ensure healthy lives and promote well-being for all", "#4C9F38"),
    (4, "Quality Education", "Ensure inclusive and equitable quality education", "#C5192D"),
    (5, "Gender Equality", "Achieve gender equality and empower all women and girls", "#FF3A21"),
    (6, "Clean Water", "Ensure access to water and sanitation for all", "#26BDE2"),
    (7, "Clean Energy", "Ensure access to affordable, reliable, sustainable energy", "#FCC30B"),
    (8, "Good Jobs", "Promote inclusive and sustainable economic growth", "#A21942"),
    (9, "Innovation", "Build resilient infrastructure, promote sustainable industrialization", "#FD6925"),
    (10, "Reduced Inequalities", "Reduce inequality within and among countries", "#DD1367"),
    (11, "Sustainable Cities", "Make cities inclusive, safe, resilient and sustainable", "#FD9D24"),
    (12, "Responsible Consumption", "Ensure sustainable consumption and production patterns", "#BF8B2E"),
    (13, "Climate Action", "Take urgent action to combat climate change and its impacts", "#3F7E44"),
    (14, "Life Below Water", "Conserve and sustainably use the oceans, seas and marine resources", "#0A97D9"),
    (15, "Life On Land", "Sustainably manage forests, combat desertification", "#56C02B"),
    (16, "Peace & Justice", "Promote just, peaceful and inclusive societies", "#00689D"),
    (17, "Partnerships", "Revitalize the global partnership for sustainable development", "#19486A"),
)
