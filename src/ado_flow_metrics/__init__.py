"""Azure DevOps Kanban flow metrics exporter."""
