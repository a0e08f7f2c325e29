# Data models for sites, workflows and batch results
