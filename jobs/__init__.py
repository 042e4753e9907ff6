"""
Command-line batch jobs, one module per console script.

Modules:
    pipelines: Pipeline runs from a chunk directory (dx-pipelines)
    incidents: Incidents from one CSV (dx-incidents)
    deployments: Deployments from one CSV (dx-deployments)
    pull_services: Grouped, sharded setPullServices importer (dx-set-pull-services)
    gitlab_onboarding: GitLab merged MRs to the DX webhook (dx-gitlab-onboarding)
    split_csv: Split a CSV by a column (dx-split-csv)
    tabnine_usage: Tabnine usage into Postgres (dx-tabnine-usage)
    user_tags: DX users/tags export to CSV (dx-user-tags)
    confluence_comments: Confluence comments export (dx-confluence-comments)
    common: Shared flags, configuration resolution and exit codes

Usage:
    dx-incidents --input ./incidents.csv --dry-run
    python -m jobs.incidents --input ./incidents.csv
"""
