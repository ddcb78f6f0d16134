# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

from enum import Enum

DOCS_URL = "https://jenkins-x.io/v3/develop/reference"
DOCS_CHATOPS_URL = f"{DOCS_URL}/chatops/"
PR_PROCESS_URL = "https://git.k8s.io/community/contributors/guide/owners.md#the-code-review-process"

CONFIG_FILE_NAME = "lighthouse-service.yaml"

# https://docs.celeryq.dev/en/stable/userguide/configuration.html#std-setting-task_default_queue
CELERY_TASK_DEFAULT_QUEUE = "short-running"
CELERY_DEFAULT_MAIN_TASK_NAME = "task.steve_jobs.process_message"

DEFAULT_RETRY_LIMIT = 2
# retry_backoff of the celery tasks in seconds
DEFAULT_RETRY_BACKOFF = 3

# git operations: initial delay 1s, doubling, 3 attempts in total
GIT_RETRY_MAX_TRIES = 3
GIT_RETRY_BASE_DELAY = 1

DEFAULT_GIT_CACHE_DIR = "/tmp/lighthouse-git"
DEFAULT_LAUNCHER_NAMESPACE = "jx"
DEFAULT_PERIODIC_RESYNC_INTERVAL = 600
OWNERS_CACHE_SIZE = 256
OWNERS_CACHE_TTL = 3600

# optional prefix of every chatops command, GitLab hijacks /approve
COMMAND_PREFIX = "lh-"

# in-repo job configuration
IN_REPO_CONFIG_DIR = ".lighthouse"
IN_REPO_TRIGGERS_FILE = "triggers.yaml"

OWNERS_FILE = "OWNERS"
OWNERS_ALIASES_FILE = "OWNERS_ALIASES"

# labels reconciled on pull requests
LABEL_APPROVED = "approved"
LABEL_LGTM = "lgtm"
LABEL_OK_TO_TEST = "ok-to-test"
LABEL_NEEDS_OK_TO_TEST = "needs-ok-to-test"
LABEL_HOLD = "do-not-merge/hold"
LABEL_WIP = "do-not-merge/work-in-progress"

RESERVED_PR_LABELS = frozenset(
    {
        LABEL_APPROVED,
        LABEL_LGTM,
        LABEL_OK_TO_TEST,
        LABEL_NEEDS_OK_TO_TEST,
        LABEL_HOLD,
        LABEL_WIP,
    },
)

# labels and annotations of the launched jobs
LABEL_PREFIX = "lighthouse.jenkins-x.io"
JOB_TYPE_LABEL = f"{LABEL_PREFIX}/type"
JOB_ID_LABEL = f"{LABEL_PREFIX}/id"
CREATED_BY_LABEL = "created-by-lighthouse"
JOB_NAME_LABEL = f"{LABEL_PREFIX}/job"
CONTEXT_LABEL = f"{LABEL_PREFIX}/context"
ORG_LABEL = f"{LABEL_PREFIX}/refs.org"
REPO_LABEL = f"{LABEL_PREFIX}/refs.repo"
PULL_LABEL = f"{LABEL_PREFIX}/refs.pull"
BRANCH_LABEL = f"{LABEL_PREFIX}/branch"
BASE_SHA_LABEL = f"{LABEL_PREFIX}/baseSHA"
LAST_COMMIT_SHA_LABEL = f"{LABEL_PREFIX}/lastCommitSHA"
BUILD_NUM_LABEL = f"{LABEL_PREFIX}/buildNum"
CLONE_URI_ANNOTATION = f"{LABEL_PREFIX}/cloneURI"
EVENT_GUID_LABEL = "event-GUID"

RESERVED_JOB_LABELS = frozenset({JOB_TYPE_LABEL, CREATED_BY_LABEL, JOB_ID_LABEL})
TRACING_ANNOTATIONS = frozenset({"traceparent", "tracestate"})

LABEL_VALUE_MAX_LENGTH = 63
GENERATE_NAME_MAX_LENGTH = 32
RESOURCE_NAME_MAX_LENGTH = 253

LIGHTHOUSE_JOB_API_GROUP = "lighthouse.jenkins.io"
LIGHTHOUSE_JOB_API_VERSION = "v1alpha1"
LIGHTHOUSE_JOB_PLURAL = "lighthousejobs"
LIGHTHOUSE_JOB_KIND = "LighthouseJob"

# bots whose `approved` labels are not considered a manual approval
DEPRECATED_BOT_NAMES = frozenset({"k8s-merge-robot", "openshift-merge-robot"})


class Plugin(str, Enum):
    trigger = "trigger"
    approve = "approve"
    lgtm = "lgtm"
    hold = "hold"
    wip = "wip"
    override = "override"
    assign = "assign"


TRUST_REFUSAL = (
    "Cannot trigger testing until a trusted user reviews the PR and leaves "
    "an `/ok-to-test` message."
)

METAPIPELINE_ERROR_DESCRIPTION = "Error creating metapipeline: {error}"
SKIPPED_DESCRIPTION = "Skipped."
OVERRIDE_DESCRIPTION = "Overridden by {user}"

WELCOME_MESSAGE = (
    "Hi @{author}. Thanks for your PR.\n\n"
    "I'm waiting for a [{org}](https://github.com/orgs/{org}/people) {more}member "
    "to verify that this patch is reasonable to test. If it is, they should reply "
    "with `/ok-to-test` on its own line. Until that is done, I will not automatically "
    "test new commits in this PR, but the usual testing commands by org members "
    "will still work. Regular contributors should [join the org]({join_org_url}) "
    "to skip this step.\n\n"
    "Once the patch is verified, the new status will be reflected by the "
    f"`{LABEL_OK_TO_TEST}` label.\n\n"
    "I understand the commands that are listed [here]({docs_url}?repo={repo})."
)

WELCOME_MESSAGE_IGNORE_OK_TO_TEST = (
    "Hi @{author}. Thanks for your PR.\n\n"
    "PRs from untrusted users cannot be marked as trusted with `/ok-to-test` in this "
    "repo meaning untrusted PR authors can never trigger tests themselves. "
    "Collaborators can still trigger tests on the PR using `/test all`.\n\n"
    "I understand the commands that are listed [here]({docs_url}?repo={repo})."
)

DRAFT_WELCOME_MESSAGE = (
    "Hi @{author}. Thanks for your PR.\n\n"
    "This pull request is a draft, so no tests will be started automatically. "
    "Once it is marked as ready for review, the usual tests will run."
)
DRAFT_WELCOME_MARKER = "<!-- lighthouse-draft-welcome -->"

OVERRIDE_NO_CONTEXT = (
    "/override requires a failed status context to operate on, but none was given"
)
OVERRIDE_UNAUTHORIZED = "{user} unauthorized: /override is restricted to repo administrators"
OVERRIDE_UNKNOWN_CONTEXTS = (
    "/override requires a failed status context to operate on.\n"
    "The following unknown contexts were given:\n{unknown}\n\n"
    "Only the following contexts were expected:\n{known}"
)
OVERRIDE_DONE = "Overrode contexts on behalf of {user}: {contexts}"

LGTM_SELF = "you cannot LGTM your own PR."
LGTM_RESTRICTED = "changing LGTM is restricted to collaborators"
LGTM_RESTRICTED_TO_OWNERS = "adding LGTM is restricted to approvers and reviewers in OWNERS files."
LGTM_REMOVED = "New changes are detected. LGTM label has been removed."
