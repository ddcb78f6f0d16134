# Copyright Contributors to the Lighthouse Service project.
# SPDX-License-Identifier: MIT

"""
The trigger plugin starts the jobs in reaction to pull request events,
comments (`/test`, `/retest`, `/ok-to-test`), pushes and deployments.

Presubmits only run automatically for trusted pull requests: the author
is trusted or a trusted user left `/ok-to-test` on the PR.
"""

import logging
import os
from typing import Optional, Union
from urllib.parse import quote_plus

from lighthouse_service.config import TriggerConfig
from lighthouse_service.constants import (
    DOCS_CHATOPS_URL,
    DRAFT_WELCOME_MARKER,
    DRAFT_WELCOME_MESSAGE,
    LABEL_LGTM,
    LABEL_NEEDS_OK_TO_TEST,
    LABEL_OK_TO_TEST,
    TRUST_REFUSAL,
    WELCOME_MESSAGE,
    WELCOME_MESSAGE_IGNORE_OK_TO_TEST,
    Plugin,
)
from lighthouse_service.events import comment, deployment, pr, push, review
from lighthouse_service.events.enums import (
    CommentAction,
    PullRequestAction,
    ReviewAction,
)
from lighthouse_service.exceptions import AggregateError, LauncherError, SCMError
from lighthouse_service.jobs.change_matcher import MemoizedChangedFiles, StaticChangedFiles
from lighthouse_service.jobs.presubmit import Presubmit
from lighthouse_service.jobutil import job_log_fields, new_deployment, new_postsubmit
from lighthouse_service.models import Refs
from lighthouse_service.scm.base import PullRequest
from lighthouse_service.worker.filters import (
    OK_TO_TEST_RE,
    filter_presubmits,
    get_contexts,
    presubmit_filter,
    test_all_filter,
)
from lighthouse_service.worker.handlers.abstract import (
    JobHandler,
    TaskName,
    commands_for_handler,
    get_commands_from_comment,
    reacts_to,
    run_for_comment,
)
from lighthouse_service.worker.launch import run_and_skip_jobs
from lighthouse_service.worker.reply import format_response
from lighthouse_service.worker.result import TaskResults
from lighthouse_service.worker.trust import trusted_pull_request, trusted_user

logger = logging.getLogger(__name__)

# additional command, e.g. `build` to react to `/build this`
CUSTOM_TRIGGER_COMMAND = os.getenv("LH_CUSTOM_TRIGGER_COMMAND", "")


class TriggerMixin:
    """Shared by the trigger handlers, expects `JobHandler` attributes."""

    @property
    def trigger_config(self) -> TriggerConfig:
        return self.service_config.trigger_for(self.event.org, self.event.repo)

    def presubmits_for(self, pull_request: PullRequest) -> list[Presubmit]:
        job_config = self.job_config_at(pull_request.head_sha)
        return job_config.get_presubmits(self.event.full_name)

    def changes_of(self, pull_request: PullRequest) -> MemoizedChangedFiles:
        return MemoizedChangedFiles(
            lambda: [
                change.path
                for change in self.scm.get_pull_request_changes(
                    pull_request.org,
                    pull_request.repo,
                    pull_request.number,
                )
            ],
        )

    def run_and_skip(
        self,
        pull_request: PullRequest,
        to_test: list[Presubmit],
        to_skip: list[Presubmit],
    ) -> TaskResults:
        run_and_skip_jobs(
            self.scm,
            self.launcher,
            pull_request,
            to_test,
            to_skip,
            event_guid=self.event.event_guid,
            elide_skipped_contexts=self.trigger_config.elide_skipped_contexts,
            pushgateway=self.pushgateway,
        )
        return TaskResults.create_from(
            success=True,
            msg=f"Triggered {len(to_test)} and skipped {len(to_skip)} jobs for {pull_request}.",
            event=self.event,
            triggered=[job.name for job in to_test],
            skipped=[job.name for job in to_skip],
        )

    def build_all(
        self,
        pull_request: PullRequest,
        presubmits: Optional[list[Presubmit]] = None,
    ) -> TaskResults:
        """Run every presubmit which runs without an explicit trigger."""
        if presubmits is None:
            presubmits = self.presubmits_for(pull_request)
        to_test, to_skip = filter_presubmits(
            test_all_filter(),
            self.changes_of(pull_request),
            pull_request.base_ref,
            presubmits,
        )
        return self.run_and_skip(pull_request, to_test, to_skip)


@reacts_to(event=pr.Action)
class TriggerPullRequestHandler(TriggerMixin, JobHandler):
    task_name = TaskName.trigger_pull_request
    plugin = Plugin.trigger

    handled_actions = {
        PullRequestAction.opened,
        PullRequestAction.reopened,
        PullRequestAction.synchronize,
        PullRequestAction.edited,
        PullRequestAction.labeled,
        PullRequestAction.ready_for_review,
        PullRequestAction.converted_to_draft,
    }

    event: pr.Action

    @classmethod
    def handles(cls, event: pr.Action) -> bool:
        return event.action in cls.handled_actions

    @property
    def pull_request(self) -> PullRequest:
        return self.event.pull_request

    def is_trusted_pr(self) -> tuple[list[str], bool]:
        """Labels of the PR and whether the PR is trusted."""
        pull_request = self.pull_request
        labels, trusted = trusted_pull_request(
            self.scm,
            self.trigger_config,
            pull_request.author,
            pull_request.org,
            pull_request.repo,
            pull_request.number,
        )
        return labels or [], trusted

    def build_all_if_trusted(self, presubmits: list[Presubmit]) -> TaskResults:
        pull_request = self.pull_request
        labels, trusted = self.is_trusted_pr()
        if not trusted:
            return TaskResults.create_from(
                success=True,
                msg=f"{pull_request} is not trusted, not starting any jobs.",
                event=self.event,
            )
        if LABEL_NEEDS_OK_TO_TEST in labels:
            self.scm.remove_label(
                pull_request.org,
                pull_request.repo,
                pull_request.number,
                LABEL_NEEDS_OK_TO_TEST,
            )
        logger.info(f"Starting all jobs for updated {pull_request}.")
        return self.build_all(pull_request, presubmits)

    def welcome(self):
        """Ask an untrusted author to wait for `/ok-to-test`."""
        pull_request = self.pull_request
        org, repo = pull_request.org, pull_request.repo
        trigger = self.trigger_config
        encoded_repo = quote_plus(pull_request.full_name)

        if trigger.ignore_ok_to_test:
            message = WELCOME_MESSAGE_IGNORE_OK_TO_TEST.format(
                author=pull_request.author,
                docs_url=DOCS_CHATOPS_URL,
                repo=encoded_repo,
            )
        else:
            more = ""
            if trigger.trusted_org and trigger.trusted_org != org:
                more = (
                    f"or [{trigger.trusted_org}]"
                    f"(https://github.com/orgs/{trigger.trusted_org}/people) "
                )
            message = WELCOME_MESSAGE.format(
                author=pull_request.author,
                org=org,
                more=more,
                join_org_url=trigger.join_org_url or f"https://github.com/orgs/{org}/people",
                docs_url=DOCS_CHATOPS_URL,
                repo=encoded_repo,
            )

        errors: list[Exception] = []
        if not trigger.ignore_ok_to_test:
            try:
                self.scm.add_label(org, repo, pull_request.number, LABEL_NEEDS_OK_TO_TEST)
            except SCMError as ex:
                errors.append(ex)
        try:
            self.scm.create_comment(org, repo, pull_request.number, message)
        except SCMError as ex:
            errors.append(ex)
        if error := AggregateError.from_list(errors):
            raise error

    def welcome_draft(self):
        """Explain why nothing runs for the draft, once per PR."""
        pull_request = self.pull_request
        org, repo, number = pull_request.org, pull_request.repo, pull_request.number
        for existing in self.scm.list_issue_comments(org, repo, number):
            if self.scm.is_bot(existing.author) and DRAFT_WELCOME_MARKER in existing.body:
                logger.debug(f"Draft welcome comment already present on {pull_request}.")
                return
        message = DRAFT_WELCOME_MESSAGE.format(author=pull_request.author)
        self.scm.create_comment(org, repo, number, f"{message}\n\n{DRAFT_WELCOME_MARKER}")

    def run(self) -> TaskResults:
        pull_request = self.pull_request
        action = self.event.action

        presubmits = self.presubmits_for(pull_request)
        if not presubmits:
            return TaskResults.create_from(
                success=True,
                msg=f"No presubmits configured for {pull_request.full_name}.",
                event=self.event,
            )

        if action == PullRequestAction.converted_to_draft:
            return TaskResults.create_from(
                success=True,
                msg=f"{pull_request} converted to draft, nothing to run.",
                event=self.event,
            )

        skip_draft = self.trigger_config.skip_draft_pr
        if skip_draft and pull_request.draft and action != PullRequestAction.labeled:
            if action == PullRequestAction.opened and not trusted_user(
                self.scm,
                self.trigger_config,
                pull_request.author,
                pull_request.org,
                pull_request.repo,
            ):
                self.welcome()
            self.welcome_draft()
            return TaskResults.create_from(
                success=True,
                msg=f"{pull_request} is a draft, not starting any jobs.",
                event=self.event,
            )

        if action == PullRequestAction.opened:
            if not trusted_user(
                self.scm,
                self.trigger_config,
                pull_request.author,
                pull_request.org,
                pull_request.repo,
            ):
                logger.info(f"Author {pull_request.author!r} is not trusted, welcoming them.")
                self.welcome()
                return TaskResults.create_from(
                    success=True,
                    msg=f"Author of {pull_request} is not trusted.",
                    event=self.event,
                )
            logger.info(f"Author {pull_request.author!r} is trusted, starting all jobs.")
            return self.build_all(pull_request, presubmits)

        if action in (PullRequestAction.reopened, PullRequestAction.synchronize):
            return self.build_all_if_trusted(presubmits)

        if action == PullRequestAction.edited:
            if self.event.previous_base_ref:
                return self.build_all_if_trusted(presubmits)
            return TaskResults.create_from(
                success=True,
                msg="Target branch not changed.",
                event=self.event,
            )

        if action == PullRequestAction.ready_for_review:
            if not skip_draft:
                return TaskResults.create_from(
                    success=True,
                    msg="Jobs already ran for the draft.",
                    event=self.event,
                )
            if LABEL_OK_TO_TEST in self.scm.get_issue_labels(
                pull_request.org,
                pull_request.repo,
                pull_request.number,
            ):
                return TaskResults.create_from(
                    success=True,
                    msg=f"{pull_request} already tested with {LABEL_OK_TO_TEST}.",
                    event=self.event,
                )
            return self.build_all_if_trusted(presubmits)

        return self.on_label(presubmits)

    def on_label(self, presubmits: list[Presubmit]) -> TaskResults:
        pull_request = self.pull_request
        label = self.event.label
        if label == LABEL_OK_TO_TEST and not self.scm.is_bot(self.event.actor or ""):
            labels = self.scm.get_issue_labels(
                pull_request.org,
                pull_request.repo,
                pull_request.number,
            )
            if LABEL_NEEDS_OK_TO_TEST in labels:
                self.scm.remove_label(
                    pull_request.org,
                    pull_request.repo,
                    pull_request.number,
                    LABEL_NEEDS_OK_TO_TEST,
                )
            logger.info(f"{LABEL_OK_TO_TEST} added to {pull_request}, starting all jobs.")
            return self.build_all(pull_request, presubmits)

        if label == LABEL_LGTM:
            _, trusted = self.is_trusted_pr()
            if not trusted:
                # the reviewer vouches for the untrusted PR
                logger.info(f"Starting all jobs for untrusted {pull_request} with LGTM.")
                return self.build_all(pull_request, presubmits)

        return TaskResults.create_from(
            success=True,
            msg=f"Nothing to do for label {label!r}.",
            event=self.event,
        )


@run_for_comment(command="test")
@run_for_comment(command="retest")
@run_for_comment(command="ok-to-test")
@reacts_to(event=comment.Comment)
@reacts_to(event=review.Review)
class TriggerCommentHandler(TriggerMixin, JobHandler):
    """
    `/test <name>`, `/test all`, `/retest` and `/ok-to-test` on pull requests,
    review bodies are treated the same way as comments.
    """

    task_name = TaskName.trigger_comment
    plugin = Plugin.trigger

    event: Union[comment.Comment, review.Review]

    @classmethod
    def handles(cls, event: Union[comment.Comment, review.Review]) -> bool:
        if isinstance(event, review.Review):
            return (
                event.action == ReviewAction.submitted
                and not event.pull_request.closed
                and bool(commands_for_handler(cls) & set(get_commands_from_comment(event.body)))
            )
        return event.action == CommentAction.created and event.is_pull_request and event.is_open

    def _context(self) -> tuple[str, str, str, str]:
        """Body, link, commenter and the author of the PR."""
        event = self.event
        if isinstance(event, review.Review):
            return event.body, event.link, event.actor or "", event.pull_request.author
        return event.body, event.link, event.actor or "", event.issue_author

    def run(self) -> TaskResults:
        org, repo, number = self.event.org, self.event.repo, self.event.number
        body, link, commenter, issue_author = self._context()

        if self.scm.is_bot(commenter):
            logger.warning(
                "Comment is made by the bot, ignoring it. For production installs it is "
                "recommended to use a different bot user account than your personal one.",
            )
            return TaskResults.create_from(
                success=True,
                msg="Comment made by the bot, not triggering any jobs.",
                event=self.event,
            )

        pull_request = self.scm.get_pull_request(org, repo, number)
        trigger = self.trigger_config

        labels: Optional[list[str]] = None
        trusted = trusted_user(self.scm, trigger, commenter, org, repo)
        if not trusted:
            labels, trusted = trusted_pull_request(
                self.scm,
                trigger,
                issue_author,
                org,
                repo,
                number,
            )
            if not trusted:
                logger.info(f"Commenting {TRUST_REFUSAL!r}.")
                self.scm.create_comment(
                    org,
                    repo,
                    number,
                    format_response(
                        body,
                        link,
                        self.scm.quote_author_for_comment(commenter),
                        TRUST_REFUSAL,
                    ),
                )
                return TaskResults.create_from(
                    success=True,
                    msg=f"{commenter} is not allowed to trigger jobs on {pull_request}.",
                    event=self.event,
                )

        if labels is None:
            labels = self.scm.get_issue_labels(org, repo, number)

        honor_ok_to_test = not trigger.ignore_ok_to_test
        is_ok_to_test = honor_ok_to_test and bool(OK_TO_TEST_RE.search(body))
        if is_ok_to_test and LABEL_OK_TO_TEST not in labels:
            self.scm.add_label(org, repo, number, LABEL_OK_TO_TEST)
        if (is_ok_to_test or LABEL_OK_TO_TEST in labels) and LABEL_NEEDS_OK_TO_TEST in labels:
            self.scm.remove_label(org, repo, number, LABEL_NEEDS_OK_TO_TEST)

        def context_getter() -> tuple[set[str], set[str]]:
            combined = self.scm.get_combined_status(org, repo, pull_request.head_sha)
            return get_contexts(combined.statuses)

        filter_ = presubmit_filter(honor_ok_to_test, context_getter, body)
        to_test, to_skip = filter_presubmits(
            filter_,
            self.changes_of(pull_request),
            pull_request.base_ref,
            self.presubmits_for(pull_request),
        )
        return self.run_and_skip(pull_request, to_test, to_skip)


if CUSTOM_TRIGGER_COMMAND:
    run_for_comment(command=CUSTOM_TRIGGER_COMMAND)(TriggerCommentHandler)


@reacts_to(event=push.Push)
class TriggerPushHandler(JobHandler):
    """Postsubmits of the pushed branch."""

    task_name = TaskName.trigger_push
    plugin = Plugin.trigger

    event: push.Push

    @classmethod
    def handles(cls, event: push.Push) -> bool:
        return event.pre_check()

    def refs(self) -> Refs:
        event = self.event
        return Refs(
            org=event.org,
            repo=event.repo,
            repo_link=event.repo_link,
            base_ref=event.branch,
            base_sha=event.after,
            base_link=event.compare_link,
            clone_uri=event.clone_url,
        )

    def run(self) -> TaskResults:
        # required to avoid circular imports
        from lighthouse_service.worker.periodics import PeriodicScheduler

        event = self.event
        changes = StaticChangedFiles(event.changed_files)
        postsubmits = self.job_config_at(event.after).get_postsubmits(event.full_name)

        launched, errors = [], []
        for postsubmit in postsubmits:
            if not postsubmit.should_run(event.branch, changes):
                continue
            job = new_postsubmit(
                self.refs(),
                postsubmit,
                event_guid=event.event_guid,
                provider=event.provider,
            )
            logger.info(f"Creating a new LighthouseJob {job_log_fields(job)}.")
            try:
                self.launcher.launch(job)
            except LauncherError as ex:
                logger.error(f"Failed to create LighthouseJob for {postsubmit.name}: {ex}")
                self.pushgateway.jobs_failed.labels(job_type=postsubmit.job_type.value).inc()
                errors.append(ex)
                continue
            self.pushgateway.jobs_launched.labels(job_type=postsubmit.job_type.value).inc()
            launched.append(postsubmit.name)

        if self.service_config.in_repo_config:
            PeriodicScheduler.get_instance().handle_push(
                event.org,
                event.repo,
                event.branch,
                event.changed_files,
            )

        if error := AggregateError.from_list(errors):
            raise error
        return TaskResults.create_from(
            success=True,
            msg=f"Launched {len(launched)} postsubmits for {event.full_name}@{event.branch}.",
            event=event,
            launched=launched,
        )


@reacts_to(event=deployment.DeploymentStatus)
class TriggerDeploymentHandler(JobHandler):
    """Deployment jobs whose state and environment match the status."""

    task_name = TaskName.trigger_deployment
    plugin = Plugin.trigger

    event: deployment.DeploymentStatus

    def run(self) -> TaskResults:
        event = self.event
        refs = Refs(
            org=event.org,
            repo=event.repo,
            repo_link=event.repo_link,
            base_ref=event.ref,
            base_sha=event.sha,
            base_link=event.repo_link,
            clone_uri=event.clone_url,
        )

        launched, errors = [], []
        for job_definition in self.job_config_at(event.sha).get_deployments(event.full_name):
            if not job_definition.matches(event.state, event.environment):
                continue
            job = new_deployment(
                refs,
                job_definition,
                event_guid=str(event.deployment_id),
                provider=event.provider,
            )
            logger.info(f"Creating a new LighthouseJob {job_log_fields(job)}.")
            try:
                self.launcher.launch(job)
            except LauncherError as ex:
                logger.error(f"Failed to create LighthouseJob for {job_definition.name}: {ex}")
                self.pushgateway.jobs_failed.labels(job_type=job_definition.job_type.value).inc()
                errors.append(ex)
                continue
            self.pushgateway.jobs_launched.labels(job_type=job_definition.job_type.value).inc()
            launched.append(job_definition.name)

        if error := AggregateError.from_list(errors):
            raise error
        return TaskResults.create_from(
            success=True,
            msg=f"Launched {len(launched)} deployment jobs for {event.full_name}.",
            event=event,
            launched=launched,
        )
