#!/usr/bin/env python3
"""
Global Station Search Web Application
Backend API server for station search and cache status
"""

from flask import Flask, jsonify, request
from flask_cors import CORS
import os
import logging

from .api_client import GuideDataClient
from .consolidation import CacheConsolidator
from .errors import NoStationsAvailable
from .ledger import ProcessingLedger
from .pipeline import IncrementalCachingPipeline
from .search import SearchConfig, SearchMode, StationSearch
from .settings_manager import get_settings_manager
from .stores import CachePaths

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

# Settings manager
settings_manager = get_settings_manager()


def get_consolidator() -> CacheConsolidator:
    """Consolidator for the configured data directory"""
    paths = CachePaths.from_data_dir(settings_manager.get_data_dir())
    return CacheConsolidator.from_paths(paths, settings_manager)


def get_search() -> StationSearch:
    return StationSearch(get_consolidator(), SearchConfig.from_settings(settings_manager))


def no_database_response(error: NoStationsAvailable):
    return jsonify({
        'status': 'no_database',
        'message': str(error),
        'hint': error.hint
    }), 503


@app.route('/api/health')
def health_check():
    """Health check endpoint"""
    try:
        consolidator = get_consolidator()
        stations = consolidator.load_effective()
        return jsonify({
            'status': 'healthy',
            'database': 'connected',
            'stations_count': len(stations)
        })
    except NoStationsAvailable as e:
        return no_database_response(e)
    except Exception as e:
        logger.error(f"Health check error: {e}")
        return jsonify({
            'status': 'error',
            'message': str(e)
        }), 500


@app.route('/api/search/stations', methods=['GET'])
def search_stations():
    """Search for stations in the database"""
    try:
        query = request.args.get('q', '').strip()
        country = request.args.get('country', '').strip().upper()
        quality = request.args.get('quality', '').strip()
        mode = request.args.get('mode', 'full').strip().lower()

        if not query:
            return jsonify({'error': 'Search query required'}), 400

        try:
            page = int(request.args.get('page', 1))
            search_mode = SearchMode(mode)
        except ValueError:
            return jsonify({'error': 'Invalid page or mode'}), 400
        if page < 1:
            return jsonify({'error': 'Invalid page or mode'}), 400

        # 'ALL' means no runtime country override
        override_country = country if country and country != 'ALL' else None
        override_resolution = quality or None

        search = get_search()
        total = search.search(query, mode=SearchMode.COUNT,
                              override_country=override_country,
                              override_resolution=override_resolution)
        if search_mode is SearchMode.COUNT:
            return jsonify({'query': query, 'count': total})

        rows = search.search(query, page=page, mode=search_mode,
                             override_country=override_country,
                             override_resolution=override_resolution)
        if search_mode is SearchMode.TSV:
            keys = ('station_id', 'name', 'call_sign', 'country')
        else:
            keys = ('name', 'call_sign', 'video_quality', 'station_id', 'country')

        return jsonify({
            'query': query,
            'page': page,
            'page_size': search.config.page_size,
            'count': total,
            'results': [dict(zip(keys, row)) for row in rows]
        })

    except NoStationsAvailable as e:
        return no_database_response(e)
    except Exception as e:
        logger.error(f"Search error: {str(e)}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/station/<station_id>')
def get_station_details(station_id):
    """Get detailed information about a specific station"""
    try:
        station = get_search().find_station(station_id)
        if not station:
            return jsonify({'error': 'Station not found'}), 404

        station_dict = station.to_dict()
        station_dict['has_logo'] = bool(station.logo_uri)
        return jsonify(station_dict)

    except NoStationsAvailable as e:
        return no_database_response(e)
    except Exception as e:
        logger.error(f"Station details error: {str(e)}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/stats')
def get_database_stats():
    """Get database statistics"""
    try:
        consolidator = get_consolidator()
        stats = consolidator.status()

        search = StationSearch(consolidator)
        try:
            stats['countries'] = search.available_countries()
            stats['qualities'] = search.available_resolutions()
        except NoStationsAvailable:
            stats['countries'] = []
            stats['qualities'] = []

        return jsonify(stats)

    except Exception as e:
        logger.error(f"Stats error: {str(e)}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/cache/rebuild', methods=['POST'])
def rebuild_combined_cache():
    """Force rebuild of the combined station database"""
    try:
        consolidator = get_consolidator()
        path = consolidator.rebuild()
        return jsonify({
            'success': True,
            'effective_store': path.name,
            'status': consolidator.status()
        })
    except NoStationsAvailable as e:
        return no_database_response(e)
    except Exception as e:
        logger.error(f"Rebuild error: {str(e)}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/cache/clear-user', methods=['POST'])
def clear_user_cache():
    """Back up and empty the user station database, resetting the processing ledger"""
    try:
        paths = CachePaths.from_data_dir(settings_manager.get_data_dir())
        client = GuideDataClient.from_settings(settings_manager, enrichment=False)
        pipeline = IncrementalCachingPipeline(paths, client, settings_manager)
        removed = pipeline.clear_user_store()
        return jsonify({'success': True, 'removed': removed})
    except Exception as e:
        logger.error(f"Clear user cache error: {str(e)}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/cache/reset-ledger', methods=['POST'])
def reset_processing_ledger():
    """Forget processed markets and lineups"""
    try:
        paths = CachePaths.from_data_dir(settings_manager.get_data_dir())
        ProcessingLedger.from_paths(paths).reset()
        return jsonify({'success': True})
    except Exception as e:
        logger.error(f"Reset ledger error: {str(e)}")
        return jsonify({'error': str(e)}), 500


# ============================================================================
# SETTINGS API ENDPOINTS
# ============================================================================

@app.route('/api/settings', methods=['GET'])
def get_settings():
    """Get all application settings"""
    try:
        settings = settings_manager.load_settings()
        settings.pop('combined_cache', None)
        return jsonify(settings)
    except Exception as e:
        logger.error(f"Error loading settings: {e}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/settings', methods=['PATCH'])
def update_settings():
    """Update specific settings without overwriting all"""
    try:
        updates = request.get_json(silent=True)

        if not updates:
            return jsonify({'error': 'No updates provided'}), 400

        success = settings_manager.update_settings(updates)

        if success:
            return jsonify({'success': True, 'message': 'Settings updated successfully'})
        else:
            return jsonify({'error': 'Failed to update settings'}), 500

    except Exception as e:
        logger.error(f"Error updating settings: {e}")
        return jsonify({'error': str(e)}), 500


def main():
    data_dir = settings_manager.get_data_dir()
    logger.info(f"Using data directory {data_dir}")

    # Run the development server
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port)


if __name__ == '__main__':
    main()
