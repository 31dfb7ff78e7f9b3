'''
To Run:
python -m school_fee_ledger.cli --students-csv students.csv dues --month march
'''
import click
import logging
from datetime import date
from pathlib import Path
from typing import Optional

from school_fee_ledger import bills, bulk_dues, config, reports
from school_fee_ledger.datatypes import MONTH_KEYS, MONTH_NAMES, ProgressEvent, month_index
from school_fee_ledger.dues import student_dues
from school_fee_ledger.errors import StoreError
from school_fee_ledger.events import ProgressChannel
from school_fee_ledger.student_store import CsvStudentStore

DEFAULT_STUDENTS_LOCATION = Path('students.csv')

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)

MONTH_CHOICE = click.Choice(MONTH_KEYS, case_sensitive=False)


def _cutoff(month: Optional[str]) -> int:
    # default to the current calendar month
    return month_index(month) if month else date.today().month - 1


def _echo_progress(event: ProgressEvent) -> None:
    names = ', '.join(event.affected_so_far) or 'none yet'
    click.echo(f"  {event.step.capitalize()}: {len(event.affected_so_far)} student(s) so far ({names})")


def _echo_result(result) -> None:
    click.echo(f"✔ {result.count_updated} student(s) updated")
    if result.failures:
        click.echo(f"⚠️  {len(result.failures)} write(s) failed:")
        for f in result.failures:
            click.echo(f"   • student {f.student_id}, {f.month}: {f.error}")
    if result.cancelled:
        click.echo("⏹ Cancelled before all months were processed")


@click.group()
@click.option('--students-csv', type=click.Path(path_type=Path), default=DEFAULT_STUDENTS_LOCATION,
              help='Path to the students CSV file')
@click.option('--config', 'config_path', type=click.Path(exists=True, path_type=Path), default=None,
              help='School config YAML (defaults to the bundled one)')
@click.pass_context
def cli(ctx, students_csv, config_path):
    """Monthly fee dues for school students."""
    ctx.ensure_object(dict)
    ctx.obj['store'] = CsvStudentStore(students_csv)
    ctx.obj['config_path'] = config_path


@cli.command()
@click.option('--month', type=MONTH_CHOICE, default=None, help='Count dues up to this month')
@click.pass_context
def dues(ctx, month):
    """Show paid and outstanding amounts for every student."""
    cutoff = _cutoff(month)
    fees = config.class_fees(ctx.obj['config_path'])
    currency = config.currency_symbol(ctx.obj['config_path'])

    for student in ctx.obj['store'].read_students():
        if student.class_name not in fees:
            click.echo(f"{student.name}: no fee configured for {student.class_name}")
            continue
        result = student_dues(student.ledger, fees[student.class_name], cutoff, student.discount)
        click.echo(f"{student.name} ({student.class_name}): paid {currency}{result.paid_ytd:,.2f}, "
                   f"due {currency}{result.net_due:,.2f}")
        if result.malformed_segments:
            click.echo(f"  ⚠️  {result.malformed_segments} unreadable payment entr(ies) ignored")


@cli.command()
@click.option('--student-id', required=True, help='Student to bill')
@click.option('--month', type=MONTH_CHOICE, default=None, help='Bill dues up to this month')
@click.option('--discount', type=click.FloatRange(0, 100), default=None,
              help="Discount percent on the monthly fee (defaults to the student's own)")
@click.pass_context
def bill(ctx, student_id, month, discount):
    """Print the dues bill lines for one student."""
    cutoff = _cutoff(month)
    try:
        student = ctx.obj['store'].get_student(student_id)
        fee = config.class_fee(student.class_name, ctx.obj['config_path'])
    except (StoreError, KeyError) as e:
        raise click.ClickException(str(e)) from e
    currency = config.currency_symbol(ctx.obj['config_path'])

    if discount is None:
        discount = student.discount
    result = bills.bill_lines(student.ledger, fee, cutoff, discount_pct=discount,
                              labels=config.bill_labels(ctx.obj['config_path']))

    click.echo(f"Dues bill for {student.name} ({student.class_name}) up to {MONTH_NAMES[cutoff]}")
    if not result.lines:
        click.echo(f"No outstanding dues found up to {MONTH_NAMES[cutoff]}.")
    for line in result.lines:
        click.echo(f"  {line.label:<24} {currency}{line.amount:,.2f}")
    click.echo(f"  {'Total':<24} {currency}{result.total:,.2f}")


@cli.command()
@click.option('--month', type=MONTH_CHOICE, default=None, help='Count dues up to this month')
@click.pass_context
def summary(ctx, month):
    """Outstanding dues grouped by class."""
    fees = config.class_fees(ctx.obj['config_path'])
    summaries = reports.class_dues_summary(ctx.obj['store'].read_students(), fees, _cutoff(month))
    click.echo(reports.format_dues_report(summaries, config.currency_symbol(ctx.obj['config_path'])))


@cli.command('add-dues')
@click.option('--owner', required=True, help='Logged-in school account uid')
@click.option('--class-name', required=True, help='Class to bill')
@click.option('--month', 'months', type=MONTH_CHOICE, multiple=True, required=True,
              help='Month to mark as dues (repeatable)')
@click.pass_context
def add_dues(ctx, owner, class_name, months):
    """Mark the chosen months as "Dues" for every unpaid student in a class."""
    channel = ProgressChannel()
    channel.subscribe(_echo_progress)

    click.echo(f"📅 Adding {', '.join(months)} dues for unpaid students in {class_name}...")
    result = bulk_dues.mark_class_unpaid_as_due(
        bulk_dues.OperationContext(owner), ctx.obj['store'], class_name, months, channel=channel)
    _echo_result(result)


@cli.command('force-dues')
@click.option('--owner', required=True, help='Logged-in school account uid')
@click.option('--student-id', 'student_ids', multiple=True, required=True, help='Student id (repeatable)')
@click.option('--month', 'months', type=MONTH_CHOICE, multiple=True, required=True,
              help='Month to mark as dues (repeatable)')
@click.confirmation_option(prompt='This overwrites any payments recorded for those months. Continue?')
@click.pass_context
def force_dues(ctx, owner, student_ids, months):
    """Mark the chosen months as "Dues" for specific students, whatever they hold."""
    channel = ProgressChannel()
    channel.subscribe(_echo_progress)

    result = bulk_dues.force_mark_due(
        bulk_dues.OperationContext(owner), ctx.obj['store'], student_ids, months, channel=channel)
    _echo_result(result)


if __name__ == '__main__':
    cli()
