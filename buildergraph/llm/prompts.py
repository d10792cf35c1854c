"""Prompt templates for BuilderGraph repository analysis."""

# ---------------------------------------------------------------------------
# Repository narrative analysis
# ---------------------------------------------------------------------------

REPOSITORY_ANALYST_SYSTEM_PROMPT = """\
You are an expert software engineering analyst. Provide detailed, professional \
analysis of GitHub repositories focusing on quality, maintainability, and best practices."""


REPOSITORY_ANALYSIS_PROMPT = """\
Analyze this GitHub repository and provide a comprehensive text analysis.

Repository Information:
- Name: {name}
- Owner: {owner}
- Description: {description}
- URL: {url}
- Language: {language}
- Tech Stack: {tech_stack}
- Stars: {stars}
- Forks: {forks}
- Open Issues: {open_issues}
- Total Files: {total_files}
- Total Commits: {total_commits}
- Created: {created_at}
- Updated: {updated_at}
- Topics: {topics}

README Content (first 2000 chars):
{readme}

File Structure:
- Key Files: {key_files}

Recent Commits:
{recent_commits}

Provide a comprehensive analysis covering:
1. Project Quality & Maturity
2. Code Organization & Structure
3. Documentation Quality
4. Development Activity & Maintenance
5. Community Engagement
6. Technical Stack Assessment
7. Strengths and Areas for Improvement

Write in a professional, detailed manner (2-3 paragraphs).
"""


# ---------------------------------------------------------------------------
# Analysis summary (no LLM; rendered locally)
# ---------------------------------------------------------------------------

ANALYSIS_SUMMARY_TEMPLATE = """\
Repository Analysis Summary:
- Overall Score: {total}/100
- Commit Score: {commit_score:.1f}/30
- Structure Score: {structure_score:.1f}/30
- README Score: {readme_score:.1f}/30
- Metadata Score: {metadata_score:.1f}/30

Repository Metrics:
- Total Files: {total_files}
- Total Commits: {total_commits}
- Stars: {stars}
- Forks: {forks}
- Has README: {has_readme}
- Has License: {has_license}
"""
