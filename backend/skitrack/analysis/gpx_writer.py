import xml.etree.ElementTree as ET

import gpxpy.gpx

from skitrack.analysis.pipeline import Track

# Garmin TrackPointExtension carries heart rate
TPX_NS = "http://www.garmin.com/xmlschemas/TrackPointExtension/v1"


def _hr_extension(heart_rate: int) -> ET.Element:
    ext = ET.Element(f"{{{TPX_NS}}}TrackPointExtension")
    hr = ET.SubElement(ext, f"{{{TPX_NS}}}hr")
    hr.text = str(heart_rate)
    return ext


def track_to_gpx(track: Track) -> str:
    """Render a Track as a GPX 1.1 document (one track, one segment)."""
    if not track.points:
        raise ValueError("cannot export an empty track")

    gpx = gpxpy.gpx.GPX()
    gpx.name = track.name
    gpx.creator = "skitrack"
    gpx.time = track.points[0].time
    gpx.nsmap["gpxtpx"] = TPX_NS

    gpx_track = gpxpy.gpx.GPXTrack(name=track.name)
    gpx.tracks.append(gpx_track)
    segment = gpxpy.gpx.GPXTrackSegment()
    gpx_track.segments.append(segment)

    for p in track.points:
        point = gpxpy.gpx.GPXTrackPoint(
            latitude=round(p.latitude, 7),
            longitude=round(p.longitude, 7),
            elevation=round(p.elevation, 1) if p.elevation is not None else None,
            time=p.time,
        )
        if p.heart_rate is not None:
            point.extensions.append(_hr_extension(p.heart_rate))
        segment.points.append(point)
    return gpx.to_xml(version="1.1")
