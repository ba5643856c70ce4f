"""GraphQL documents used by the data client."""

from __future__ import annotations

_CALENDAR_FIELDS = """
        contributionCalendar {
          totalContributions
          weeks {
            contributionDays {
              date
              contributionCount
            }
          }
        }
"""

CONTRIBUTIONS_QUERY = (
    """
query($username: String!, $from: DateTime!, $to: DateTime!) {
  user(login: $username) {
    contributionsCollection(from: $from, to: $to) {"""
    + _CALENDAR_FIELDS
    + """    }
  }
}
"""
)

CONTRIBUTION_YEARS_QUERY = """
query($username: String!) {
  user(login: $username) {
    contributionsCollection {
      contributionYears
    }
  }
}
"""

USER_PROFILE_QUERY = """
query($username: String!) {
  user(login: $username) {
    id
    databaseId
    login
    name
    email
    avatarUrl
    bio
    company
    location
    websiteUrl
    twitterUsername
    createdAt
    updatedAt
    followers { totalCount }
    following { totalCount }
    repositories(privacy: PUBLIC) { totalCount }
    contributionsCollection {
      totalCommitContributions
      totalIssueContributions
      totalPullRequestContributions
      totalPullRequestReviewContributions
    }
  }
}
"""

REPOSITORY_LANGUAGES_QUERY = """
query($owner: String!, $repo: String!) {
  repository(owner: $owner, name: $repo) {
    languages(first: 10, orderBy: {field: SIZE, direction: DESC}) {
      edges {
        size
        node { name color }
      }
      totalSize
    }
  }
}
"""

REPOSITORY_DETAILS_QUERY = """
query($owner: String!, $repo: String!) {
  repository(owner: $owner, name: $repo) {
    id
    databaseId
    name
    nameWithOwner
    description
    url
    homepageUrl
    isPrivate
    isFork
    isArchived
    createdAt
    updatedAt
    pushedAt
    stargazerCount
    forkCount
    watchers { totalCount }
    issues(states: OPEN) { totalCount }
    pullRequests(states: OPEN) { totalCount }
    releases { totalCount }
    primaryLanguage { name color }
    licenseInfo { name spdxId }
    defaultBranchRef { name }
  }
}
"""


def year_alias(year: int) -> str:
    return f"year{year}"


def build_yearly_contributions_query(years: list[int]) -> str:
    """One request, one aliased ``user`` sub-query per calendar year."""
    blocks = []
    for year in years:
        blocks.append(
            f"  {year_alias(year)}: user(login: $username) {{\n"
            f'    contributionsCollection(from: "{year}-01-01T00:00:00Z", '
            f'to: "{year}-12-31T23:59:59Z") {{'
            + _CALENDAR_FIELDS
            + "    }\n  }\n"
        )
    return "query($username: String!) {\n" + "".join(blocks) + "}\n"
