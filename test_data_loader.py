"""Tests for the seed data loader."""

import pytest

from data_loader import LOAD_ORDER, DataLoader, DataLoadError


@pytest.fixture
def loader(fake_client, seed):
    return DataLoader(fake_client, seed)


def test_load_all_populates_every_table(loader, fake_client, seed):
    result = loader.load_all()

    assert result == {'success': True, 'message': 'All data loaded successfully'}
    assert fake_client.count('dental_procedures') == len(seed.procedures('dental'))
    assert fake_client.count('aesthetic_procedures') == len(seed.procedures('aesthetic'))
    assert fake_client.count('categories') == len(seed.categories('dental')) + len(seed.categories('aesthetic'))
    assert fake_client.count('metropolitan_markets') == 50
    assert fake_client.count('regions') == 5
    assert fake_client.count('gender_split_by_region') == 5
    assert fake_client.count('top_providers') == 20
    assert fake_client.count('companies') == 10


def test_load_all_is_idempotent(loader, fake_client):
    loader.load_all()
    loader.load_all()

    assert fake_client.count('dental_procedures') == 34
    assert fake_client.count('procedures_by_region') == 20


def test_procedures_reference_category_ids(loader, fake_client):
    loader.load_all()

    preventive = fake_client.select('categories', filters={'industry': 'eq.dental', 'category_label': 'eq.Preventive'})
    cleaning = fake_client.select('dental_procedures', filters={'procedure_name': 'eq.Regular Cleanings'})[0]
    assert cleaning['category_id'] == preventive[0]['id']
    assert cleaning['age_range'] == 'All ages'
    assert cleaning['yearly_growth_percentage'] == pytest.approx(7.8)


def test_categories_keep_positions(loader, fake_client):
    loader.load_table('categories')

    rows = fake_client.select('categories', filters={'industry': 'eq.dental'}, order='position.asc')
    assert [row['position'] for row in rows] == list(range(9))
    assert rows[0]['category_label'] == 'Preventive'


def test_region_tables_load_regions_first(loader, fake_client):
    loader.load_table('demographics_by_region')

    assert fake_client.count('regions') == 5
    assert fake_client.count('demographics_by_region') == 20
    assert all(row['region_id'] is not None for row in fake_client.tables['demographics_by_region'])


def test_failed_batch_retried_row_by_row(loader, fake_client):
    fake_client.write_failures['dental_market_growth'] = lambda rows: len(rows) > 1

    written, failed = loader.load_table('dental_market_growth')

    assert (written, failed) == (11, 0)
    assert fake_client.count('dental_market_growth') == 11


def test_single_row_failures_counted(loader, fake_client):
    fake_client.write_failures['dental_demographics'] = lambda rows: any(r['age_group'] == '65+' for r in rows)

    written, failed = loader.load_table('dental_demographics')

    assert (written, failed) == (4, 1)


def test_all_rows_failing_raises(loader, fake_client):
    fake_client.write_failures['market_size_by_state'] = lambda rows: True

    with pytest.raises(DataLoadError):
        loader.load_table('market_size_by_state')


def test_load_all_reports_first_failure(loader, fake_client):
    del fake_client.tables['metropolitan_markets']

    result = loader.load_all()

    assert result['success'] is False
    assert 'metropolitan_markets' in result['error']
    assert fake_client.count('dental_gender_distribution') == 2
    assert fake_client.count('market_size_by_state') == 0


def test_insert_mode_uses_insert(loader, fake_client):
    loader.load_table('aesthetic_gender_distribution', mode='insert')

    assert ('insert', 'aesthetic_gender_distribution', 2) in fake_client.calls


def test_unknown_table(loader):
    with pytest.raises(KeyError):
        loader.load_table('market_trends')


def test_empty_rows_are_a_no_op(loader):
    assert loader.write_rows('companies', []) == (0, 0)


def test_companies_store_employee_count_as_text(loader, fake_client):
    loader.load_table('companies')

    assert all(isinstance(row['employee_count'], str) for row in fake_client.tables['companies'])


def test_check_data_loaded(loader, fake_client):
    assert loader.check_data_loaded() is False
    loader.load_table('categories')
    loader.load_table('dental_procedures')
    assert loader.check_data_loaded() is True


def test_check_data_loaded_missing_table(loader, fake_client):
    del fake_client.tables['dental_procedures']
    assert loader.check_data_loaded() is False


def test_load_order_covers_every_seeded_table():
    assert LOAD_ORDER.index('categories') < LOAD_ORDER.index('dental_procedures')
    assert LOAD_ORDER.index('regions') < LOAD_ORDER.index('procedures_by_region')


def test_news_tables_seeded(loader, fake_client):
    loader.load_all()

    assert fake_client.count('news_articles') == 5
    assert fake_client.count('news_categories') == 10
    assert fake_client.count('news_sources') == 6
    featured = fake_client.select('news_articles', filters={'featured': 'eq.true'})
    assert [a['industry'] for a in featured] == ['dental']


def test_news_articles_upsert_on_url(loader, fake_client):
    loader.load_table('news_articles')
    loader.load_table('news_articles')

    assert fake_client.count('news_articles') == 5
    assert ('upsert', 'news_articles', 5) in fake_client.calls
