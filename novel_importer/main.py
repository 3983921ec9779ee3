"""
Command-line entry point for the web novel importer.
"""

import sys
import signal
import argparse
import json
from typing import Optional, Dict, Any, List

from novel_importer.utils.logging import setup_logging, get_logger, log_business_operation
from novel_importer.utils.errors import NovelImporterError, RuleNotFoundError, ValidationError
from novel_importer.concurrent import RequestGate, ConnectivityChecker, RequestDispatcher
from novel_importer.crawlers import HTTPClient, RetryConfig, ExtractionService
from novel_importer.data import (
    SQLiteDatabaseManager,
    NovelRepository,
    ParserRuleRepository,
    ParserRule
)
from novel_importer.rules import RuleService, seed_default_rules
from novel_importer.services import DownloadOrchestrator, DownloadResult
from config import ConfigManager, SystemConfig


logger = get_logger(__name__)


class NovelImporterApp:
    """Wires the import engine together; every component is built once here and injected."""

    def __init__(self, config_path: Optional[str] = None, log_level: Optional[str] = None):
        """
        Args:
            config_path: Optional path to configuration file
            log_level: Overrides the configured log level
        """
        self.config_path = config_path
        self.log_level = log_level
        self.config_manager: Optional[ConfigManager] = None
        self.config: Optional[SystemConfig] = None

        self.db_manager: Optional[SQLiteDatabaseManager] = None
        self.novel_repository: Optional[NovelRepository] = None
        self.rule_repository: Optional[ParserRuleRepository] = None
        self.http_client: Optional[HTTPClient] = None
        self.extraction: Optional[ExtractionService] = None
        self.gate: Optional[RequestGate] = None
        self.dispatcher: Optional[RequestDispatcher] = None
        self.rule_service: Optional[RuleService] = None
        self.orchestrator: Optional[DownloadOrchestrator] = None

        self._initialized = False

    def _signal_handler(self, signum: int, frame) -> None:
        logger.info("Received signal, cancelling download", signal=signum)
        if self.orchestrator and self.orchestrator.cancel_download():
            return
        raise KeyboardInterrupt

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

    def initialize(self) -> None:
        """Load configuration and build every component."""
        if self._initialized:
            return

        self.config_manager = ConfigManager(self.config_path) if self.config_path else ConfigManager()
        self.config = self.config_manager.load_config()
        setup_logging(self.log_level or self.config.log_level, self.config.log_dir)

        self.db_manager = SQLiteDatabaseManager(self.config.database.sqlite_path)
        self.db_manager.initialize()
        self.novel_repository = NovelRepository(self.db_manager)
        self.rule_repository = ParserRuleRepository(self.db_manager)

        crawler_config = self.config.crawler
        self.http_client = HTTPClient(
            timeout=crawler_config.request_timeout,
            user_agents=crawler_config.user_agents,
            retry_config=RetryConfig(max_attempts=crawler_config.transport_retries),
            min_request_interval=crawler_config.min_request_interval
        )
        self.extraction = ExtractionService(self.http_client)

        connectivity_config = self.config.connectivity
        self.gate = RequestGate(self.config.concurrency.max_concurrent_requests)
        self.dispatcher = RequestDispatcher(
            ConnectivityChecker(
                host=connectivity_config.probe_host,
                port=connectivity_config.probe_port,
                timeout=connectivity_config.probe_timeout,
                enabled=connectivity_config.enabled
            ),
            self.gate
        )

        download_config = self.config.download
        self.rule_service = RuleService(
            self.rule_repository,
            self.extraction,
            self.dispatcher,
            sample_content_length=download_config.sample_content_length
        )
        self.orchestrator = DownloadOrchestrator(
            self.extraction,
            self.dispatcher,
            self.novel_repository,
            chapter_retry_limit=download_config.chapter_retry_limit,
            retry_delay=download_config.retry_delay
        )

        seed_default_rules(self.rule_repository)

        self._initialized = True
        logger.info("Novel importer initialized", database=self.config.database.sqlite_path)

    def stop(self) -> None:
        if self.orchestrator:
            self.orchestrator.shutdown(wait=True)
        if self.http_client:
            self.http_client.close()

    def resolve_rule(self, url: str, rule_id: Optional[int] = None) -> ParserRule:
        """
        The rule with the given id, or the best match for the URL.

        Raises:
            RuleNotFoundError: If the id is unknown or no rule matches
        """
        if rule_id is None:
            return self.rule_service.match(url)

        rule = self.rule_service.get_rule_by_id(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Parser rule {rule_id} not found", {"rule_id": rule_id})
        return rule

    @log_business_operation('cli', 'import_novel')
    def import_novel(self, url: str, rule_id: Optional[int] = None, force_new: bool = False) -> DownloadResult:
        """Import a novel, resuming the earlier import of the same URL unless force_new is set."""
        existing = None if force_new else self.orchestrator.check_existing_novel(url)
        rule = self.resolve_rule(url, rule_id)
        print(f"Using parser rule: {rule.name} ({rule.domain_pattern})")

        if existing is not None:
            print(f"Already imported as novel {existing.novel_id} "
                  f"({existing.downloaded_count}/{existing.total_chapters} chapters), resuming")
            future = self.orchestrator.start_resume(existing.novel_id, url, rule, print_progress)
        else:
            future = self.orchestrator.start_download(url, rule, print_progress)
        return future.result()

    @log_business_operation('cli', 'resume_novel')
    def resume_novel(self, novel_id: int, url: str, rule_id: Optional[int] = None) -> DownloadResult:
        rule = self.resolve_rule(url, rule_id)
        future = self.orchestrator.start_resume(novel_id, url, rule, print_progress)
        return future.result()

    def list_rules(self) -> List[Dict[str, Any]]:
        return [
            {
                'id': rule.id,
                'name': rule.name,
                'domain': rule.domain_pattern,
                'chapter_list_selector': rule.chapter_list_selector,
                'content_selector': rule.content_selector,
            }
            for rule in self.rule_service.get_all_rules()
        ]

    def seed_rules(self) -> int:
        return seed_default_rules(self.rule_repository)

    @log_business_operation('cli', 'test_rule')
    def test_rule(self, rule_id: int, url: str) -> Dict[str, Any]:
        rule = self.rule_service.get_rule_by_id(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Parser rule {rule_id} not found", {"rule_id": rule_id})
        result = self.rule_service.test_rule(rule, url)
        return {
            'success': result.success,
            'title': result.title,
            'author': result.author,
            'chapter_count': result.chapter_count,
            'sample_content': result.sample_content,
            'error_message': result.error_message,
        }

    def check_existing(self, url: str) -> Dict[str, Any]:
        existing = self.orchestrator.check_existing_novel(url)
        if existing is None:
            return {'imported': False, 'source_url': url}
        return {
            'imported': True,
            'novel_id': existing.novel_id,
            'title': existing.title,
            'downloaded_count': existing.downloaded_count,
            'total_chapters': existing.total_chapters,
            'complete': existing.is_complete,
        }

    def list_novels(self) -> List[Dict[str, Any]]:
        return [
            {
                'id': novel.id,
                'title': novel.title,
                'author': novel.author,
                'total_chapters': novel.total_chapters,
                'discovered_chapters': novel.discovered_chapters,
                'latest_chapter_title': novel.latest_chapter_title,
                'source_url': novel.source_url,
            }
            for novel in self.novel_repository.list_novels()
        ]


def print_progress(current: int, total: int, title: str) -> None:
    print(f"[{current}/{total}] {title}", flush=True)


def create_cli_parser() -> argparse.ArgumentParser:
    """Create command-line interface parser."""
    parser = argparse.ArgumentParser(
        prog='novel-importer',
        description='Web Novel Importer - import serialized novels from web pages',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --import https://www.biquge.com/book/1/      # Import with auto-matched rule
  %(prog)s --import URL --rule-id 3                     # Import with a specific rule
  %(prog)s --import URL --new                           # Import again as a separate novel
  %(prog)s --resume 12 --url URL                        # Resume an interrupted import
  %(prog)s --check-existing URL                         # Show an earlier import of URL
  %(prog)s --test-rule 3 --url URL                      # Try a rule against a page
  %(prog)s --list-rules                                 # List parser rules
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        help='Path to configuration file (default: config.json)'
    )

    operation_group = parser.add_mutually_exclusive_group(required=True)

    operation_group.add_argument(
        '--import',
        dest='import_url',
        metavar='URL',
        type=str,
        help='Import the novel at URL'
    )

    operation_group.add_argument(
        '--resume',
        metavar='NOVEL_ID',
        type=int,
        help='Resume importing a novel (requires --url)'
    )

    operation_group.add_argument(
        '--test-rule',
        metavar='RULE_ID',
        type=int,
        help='Test a parser rule against a page (requires --url)'
    )

    operation_group.add_argument(
        '--check-existing',
        metavar='URL',
        type=str,
        help='Report whether the novel at URL was already imported'
    )

    operation_group.add_argument(
        '--list-rules',
        action='store_true',
        help='List parser rules and exit'
    )

    operation_group.add_argument(
        '--seed-rules',
        action='store_true',
        help='Add the default parser rules if missing'
    )

    operation_group.add_argument(
        '--list-novels',
        action='store_true',
        help='List imported novels and exit'
    )

    parser.add_argument(
        '--new',
        dest='force_new',
        action='store_true',
        help='With --import, create a new novel even if the URL was imported before'
    )

    parser.add_argument(
        '--url',
        type=str,
        help='Novel page URL for --resume and --test-rule'
    )

    parser.add_argument(
        '--rule-id',
        type=int,
        help='Parser rule to use instead of matching by URL'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        choices=['json', 'text'],
        default='text',
        help='Output format for results (default: text)'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Override log level from configuration'
    )

    return parser


def format_output(data: Any, format_type: str) -> str:
    """Format output data according to specified format."""
    if format_type == 'json':
        return json.dumps(data, indent=2, default=str, ensure_ascii=False)

    if isinstance(data, dict):
        return '\n'.join(f"{key}: {value}" for key, value in data.items())
    if isinstance(data, list):
        return '\n\n'.join(format_output(item, format_type) for item in data)
    return str(data)


def result_to_dict(result: DownloadResult) -> Dict[str, Any]:
    return {
        'state': result.state.value,
        'novel_id': result.novel_id,
        'chapters_downloaded': result.chapters_downloaded,
        'next_pending_index': result.next_pending_index,
        'total_chapters': result.total_chapters,
    }


def handle_operation(app: NovelImporterApp, args: argparse.Namespace) -> int:
    """Run the requested operation and return the exit code."""
    if args.import_url:
        result = app.import_novel(args.import_url, args.rule_id, args.force_new)
        print(format_output(result_to_dict(result), args.output))
        return 0

    if args.resume is not None:
        result = app.resume_novel(args.resume, args.url, args.rule_id)
        print(format_output(result_to_dict(result), args.output))
        return 0

    if args.test_rule is not None:
        result = app.test_rule(args.test_rule, args.url)
        print(format_output(result, args.output))
        return 0 if result['success'] else 1

    if args.check_existing:
        print(format_output(app.check_existing(args.check_existing), args.output))
        return 0

    if args.list_rules:
        print(format_output(app.list_rules(), args.output))
        return 0

    if args.seed_rules:
        added = app.seed_rules()
        print(format_output({'rules_added': added}, args.output))
        return 0

    if args.list_novels:
        print(format_output(app.list_novels(), args.output))
        return 0

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with command-line interface."""
    parser = create_cli_parser()
    args = parser.parse_args(argv)

    if (args.resume is not None or args.test_rule is not None) and not args.url:
        parser.error('--url is required with --resume and --test-rule')

    app = NovelImporterApp(config_path=args.config, log_level=args.log_level)
    exit_code = 0

    try:
        app.initialize()
        app.install_signal_handlers()
        exit_code = handle_operation(app, args)

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
        exit_code = 0
    except ValidationError as e:
        logger.error("Invalid input", field=e.field, error=e.message)
        print(format_output({'error': e.message}, args.output))
        exit_code = 1
    except NovelImporterError as e:
        logger.error("Operation failed", error_type=type(e).__name__, error=e.message, details=e.details)
        print(format_output({'error': e.message, **e.details}, args.output))
        exit_code = 1
    finally:
        try:
            app.stop()
        except NovelImporterError as e:
            logger.error("Error during cleanup", error=str(e))
            exit_code = 1

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
